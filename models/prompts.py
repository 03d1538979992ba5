# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""Prompt templates for LifeCraft's generative features."""

RECOMMENDATION_PROMPT = """You are an AI learning advisor for LifeCraft, a disaster preparedness training platform. Analyze the user's learning journey and recommend the top 3 most suitable modules.

USER PROFILE:
- Total Points: {total_points}
- Current Rank: {rank}
- Completed Modules: {completed_modules}/{total_modules}
- Average Score: {average_score}%
- Badges Earned: {badges}

COMPLETED MODULES:
{completed_details}

AVAILABLE MODULES:
{available_modules}

RECOMMENDATION CRITERIA:
1. Consider the user's current skill level (rank and average score)
2. Build on completed modules for progressive learning
3. Balance difficulty - not too easy, not too hard
4. Prioritize categories the user hasn't explored yet for variety
5. Consider high scores as readiness for harder challenges
6. For beginners, start with foundational topics
7. For advanced users, recommend specialized or advanced topics

Respond with EXACTLY 3 recommendations in this JSON format (no markdown, no code blocks, just pure JSON):
[
  {{
    "moduleId": "module_id_here",
    "title": "Module Title",
    "reason": "One clear, engaging sentence explaining why this module is recommended based on their progress and learning patterns",
    "difficulty": "Beginner/Intermediate/Advanced",
    "points": 100
  }}
]

Make reasons personal, specific, and motivating. Focus on learning progression and skill building."""


def make_recommendation_prompt(stats: dict, available_modules: list[dict]) -> str:
    completed_details = "\n".join(
        f"- {m['title']} ({m['category']}, {m['difficulty']}) - Score: {m['score']}%"
        for m in stats["completedModuleDetails"]
    )
    available = "\n\n".join(
        f"{i + 1}. {m['title']}\n"
        f"   ID: {m['id']}\n"
        f"   Category: {m['category']}\n"
        f"   Difficulty: {m['difficulty']}\n"
        f"   Points: {m['points']}\n"
        f"   Duration: {m['duration']}\n"
        f"   Description: {m['description']}"
        for i, m in enumerate(available_modules)
    )
    return RECOMMENDATION_PROMPT.format(
        total_points=stats["totalPoints"],
        rank=stats["rank"],
        completed_modules=stats["completedModules"],
        total_modules=stats["totalModules"],
        average_score=stats["averageScore"],
        badges=", ".join(stats["badges"]) or "None yet",
        completed_details=completed_details or "None yet",
        available_modules=available,
    )
