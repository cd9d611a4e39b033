import unittest

from pydantic import ValidationError

from onetime_download.config import Settings


class TestCacheBackend(unittest.TestCase):
    def test_default_is_redis(self):
        settings = Settings(_env_file=None)
        self.assertEqual(settings.cache_backend, "redis")
        self.assertFalse(settings.use_memory_cache)

    def test_memory_backend_is_case_insensitive(self):
        settings = Settings(_env_file=None, cache_backend=" Memory ")
        self.assertEqual(settings.cache_backend, "memory")
        self.assertTrue(settings.use_memory_cache)

    def test_unknown_backend_rejected_at_load(self):
        with self.assertRaises(ValidationError):
            Settings(_env_file=None, cache_backend="memcached")
