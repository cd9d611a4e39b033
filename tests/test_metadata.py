import unittest

from fakes import (
    DEMO_URL,
    FailingCache,
    FakeRunner,
    RecordingCache,
    demo_output,
)
from onetime_download.cache import MemoryCache
from onetime_download.downloader import MetadataFetcher, YtDlpClient
from onetime_download.downloader.process import (
    ProcessStartError,
    ProcessTimeoutError,
)
from onetime_download.errors import (
    ExtractionFailedError,
    InvalidURLError,
    MalformedMetadataError,
)
from onetime_download.models import VideoMetadata


def make_fetcher(runner, cache, **kwargs):
    client = YtDlpClient("yt-dlp", runner=runner, metadata_timeout=30.0)
    return MetadataFetcher(client, cache, **kwargs)


class TestFetchMetadata(unittest.IsolatedAsyncioTestCase):
    async def test_cache_miss_runs_ytdlp_and_caches(self):
        runner = FakeRunner(stdout=demo_output())
        cache = RecordingCache()
        fetcher = make_fetcher(runner, cache)

        video = await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(len(runner.capture_calls), 1)
        args = runner.capture_calls[0]
        self.assertEqual(args[0], "yt-dlp")
        self.assertIn("-j", args)
        self.assertEqual(args[-1], DEMO_URL)
        self.assertEqual(runner.capture_timeouts, [30.0])

        self.assertEqual([f.format_id for f in video.formats], ["18"])
        key = "video_meta:" + DEMO_URL
        self.assertEqual(cache.ttls[key], 300)
        self.assertEqual(
            VideoMetadata.from_cache_payload(cache.entries[key]),
            video,
        )

    async def test_cache_hit_skips_ytdlp(self):
        cached = VideoMetadata(source_url=DEMO_URL, id="cached", title="From cache")
        cache = RecordingCache({"video_meta:" + DEMO_URL: cached.to_cache_payload()})
        runner = FakeRunner(stdout=demo_output())
        fetcher = make_fetcher(runner, cache)

        video = await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(video, cached)
        self.assertEqual(runner.capture_calls, [])
        self.assertEqual(cache.ttls, {})

    async def test_second_fetch_served_from_cache(self):
        runner = FakeRunner(stdout=demo_output())
        fetcher = make_fetcher(runner, MemoryCache())

        first = await fetcher.fetch_metadata(DEMO_URL)
        second = await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(first, second)
        self.assertEqual(len(runner.capture_calls), 1)

    async def test_corrupt_cache_entry_is_refetched(self):
        key = "video_meta:" + DEMO_URL
        cache = RecordingCache({key: b"{corrupt"})
        runner = FakeRunner(stdout=demo_output())
        fetcher = make_fetcher(runner, cache)

        video = await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(video.id, "abc")
        self.assertEqual(len(runner.capture_calls), 1)
        self.assertNotEqual(cache.entries[key], b"{corrupt")

    async def test_invalid_url_fails_before_any_work(self):
        runner = FakeRunner(stdout=demo_output())
        cache = RecordingCache()
        fetcher = make_fetcher(runner, cache)

        with self.assertRaises(InvalidURLError):
            await fetcher.fetch_metadata("not-a-url")

        self.assertEqual(runner.capture_calls, [])
        self.assertEqual(cache.get_calls, [])

    async def test_non_zero_exit(self):
        runner = FakeRunner(
            returncode=1,
            stderr=b"WARNING: x\nERROR: Unsupported URL\n",
        )
        cache = RecordingCache()
        fetcher = make_fetcher(runner, cache)

        with self.assertRaises(ExtractionFailedError) as ctx:
            await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(ctx.exception.returncode, 1)
        self.assertIn("Unsupported URL", str(ctx.exception))
        self.assertEqual(cache.entries, {})

    async def test_empty_output(self):
        fetcher = make_fetcher(FakeRunner(stdout=b"  \n"), RecordingCache())
        with self.assertRaises(ExtractionFailedError):
            await fetcher.fetch_metadata(DEMO_URL)

    async def test_start_failure_is_extraction_failure(self):
        runner = FakeRunner(start_error=ProcessStartError("Cannot start yt-dlp"))
        fetcher = make_fetcher(runner, RecordingCache())
        with self.assertRaises(ExtractionFailedError):
            await fetcher.fetch_metadata(DEMO_URL)

    async def test_timeout_is_extraction_failure(self):
        runner = FakeRunner(start_error=ProcessTimeoutError("too slow"))
        fetcher = make_fetcher(runner, RecordingCache())
        with self.assertRaises(ExtractionFailedError):
            await fetcher.fetch_metadata(DEMO_URL)

    async def test_malformed_output(self):
        cache = RecordingCache()
        fetcher = make_fetcher(FakeRunner(stdout=b"<html>"), cache)
        with self.assertRaises(MalformedMetadataError):
            await fetcher.fetch_metadata(DEMO_URL)
        self.assertEqual(cache.entries, {})

    async def test_cache_failures_do_not_fail_fetch(self):
        cache = FailingCache()
        runner = FakeRunner(stdout=demo_output())
        fetcher = make_fetcher(runner, cache)

        video = await fetcher.fetch_metadata(DEMO_URL)

        self.assertEqual(video.title, "Demo")
        self.assertEqual(cache.set_calls, 1)
        self.assertEqual(len(runner.capture_calls), 1)

    async def test_custom_prefix_and_ttl(self):
        cache = RecordingCache()
        fetcher = make_fetcher(
            FakeRunner(stdout=demo_output()),
            cache,
            ttl_seconds=60,
            key_prefix="meta:",
        )
        await fetcher.fetch_metadata(DEMO_URL)
        self.assertEqual(cache.ttls, {"meta:" + DEMO_URL: 60})
