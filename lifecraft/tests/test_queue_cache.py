import unittest

from lifecraft.cache import InMemoryCache
from lifecraft.queue import InMemoryJobQueue
from lifecraft.storage import InMemoryStorageClient, certificate_key


class InMemoryCacheTests(unittest.TestCase):
    def test_set_get_delete(self):
        cache = InMemoryCache()
        cache.set_json("k", {"a": [1, 2]}, ttl_seconds=60)
        self.assertEqual(cache.get_json("k"), {"a": [1, 2]})
        cache.delete("k")
        self.assertIsNone(cache.get_json("k"))

    def test_expired_entries_read_as_missing(self):
        cache = InMemoryCache()
        cache.set_json("k", True, ttl_seconds=0)
        self.assertIsNone(cache.get_json("k"))
        self.assertNotIn("k", cache.entries)


class InMemoryJobQueueTests(unittest.TestCase):
    def test_fifo_with_single_unacked_message(self):
        queue = InMemoryJobQueue()
        queue.enqueue({"userId": "u1"})
        queue.enqueue({"userId": "u2"})

        first = queue.dequeue(block=False)
        self.assertEqual(first.body, {"userId": "u1"})
        self.assertIsNone(queue.dequeue(block=False))

        queue.ack(first)
        self.assertEqual(queue.dequeue(block=False).body, {"userId": "u2"})

    def test_nack_with_requeue_puts_message_back_in_front(self):
        queue = InMemoryJobQueue()
        queue.enqueue({"userId": "u1"})
        queue.enqueue({"userId": "u2"})
        message = queue.dequeue(block=False)
        queue.nack(message, requeue=True)
        self.assertEqual(queue.dequeue(block=False).body, {"userId": "u1"})


class StorageTests(unittest.TestCase):
    def test_certificate_key_layout(self):
        self.assertEqual(
            certificate_key("drills", "u1", "d1"), "certificates/drills/u1/d1.pdf"
        )

    def test_in_memory_storage_signs_paths(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("certificates/a.pdf", b"%PDF")
        self.assertEqual(storage.stored_objects["certificates/a.pdf"], b"%PDF")
        self.assertIn("certificates/a.pdf", storage.presign_get("certificates/a.pdf"))


if __name__ == "__main__":
    unittest.main()
