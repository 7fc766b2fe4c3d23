"""
Tests for VideoRegistry instrumentation.
"""
from conftest import FakeDocument, FakeVideo
from video_registry import VideoRegistry


class TestVideoRegistry:
    def test_scan_twice_does_not_double_register(self):
        """A second scan over an unchanged page adds nothing."""
        plays = []
        video = FakeVideo()
        document = FakeDocument([video])
        registry = VideoRegistry(observers={"play": plays.append})

        assert registry.scan(document) == 1
        assert registry.scan(document) == 0
        assert video.listener_count("play") == 1

        video.fire("play")
        assert plays == [video]

    def test_scan_picks_up_new_videos(self):
        first, second = FakeVideo("first"), FakeVideo("second")
        document = FakeDocument([first])
        registry = VideoRegistry()
        registry.scan(document)

        document.videos.append(second)
        assert registry.scan(document) == 1
        assert first in registry and second in registry
        assert len(registry) == 2

    def test_register_clears_pip_disable(self):
        video = FakeVideo()
        VideoRegistry().register(video)
        assert video.pip_disabled is False

    def test_locked_pip_flag_does_not_block_registration(self):
        video = FakeVideo()

        def locked():
            raise PermissionError("read-only attribute")
        video.clear_pip_disable = locked

        assert VideoRegistry(observers={"play": lambda v: None}).register(video)
        assert video.listener_count("play") == 1

    def test_stale_video_membership_is_harmless(self):
        video = FakeVideo()
        registry = VideoRegistry()
        registry.register(video)
        video.is_connected = False
        assert video in registry
        assert registry.register(video) is False
