"""
LifeCraft disaster-preparedness training backend.
"""
