"""
Eligibility rules deciding which videos may be offered for PiP.

All functions are pure: they read the video handle, the settings snapshot
and the viewport size, and never touch the page.
"""
from typing import Iterable, Optional, Tuple

from pip_capabilities import has_known_duration
from pip_settings import PipSettings


def _rect(video):
    try:
        return video.rect
    except Exception:
        return None


def is_visible(video, viewport: Tuple[int, int]) -> bool:
    """Rendered rect has positive area and intersects the viewport"""
    rect = _rect(video)
    if rect is None:
        return False
    view_width, view_height = viewport
    return (rect.width > 0 and rect.height > 0 and
            rect.top < view_height and rect.bottom > 0 and
            rect.left < view_width and rect.right > 0)


def meets_min_duration(video, settings: PipSettings) -> bool:
    """Unknown or zero durations pass; known ones must reach the minimum"""
    duration = getattr(video, "duration", None)
    if not has_known_duration(duration):
        return True
    return duration >= settings.min_duration_seconds


def is_eligible(video, settings: PipSettings, viewport: Tuple[int, int]) -> bool:
    if video is None or not is_visible(video, viewport):
        return False
    rect = video.rect
    if rect.width < settings.min_width or rect.height < settings.min_height:
        return False
    return meets_min_duration(video, settings)


def is_blacklisted(hostname: str, settings: PipSettings) -> bool:
    """Substring match of any blacklist entry against the hostname"""
    hostname = hostname or ""
    return any(entry and entry in hostname for entry in (e.strip() for e in settings.blacklist))


def intrinsic_area(video) -> int:
    return (video.video_width or 0) * (video.video_height or 0)


def is_playing(video) -> bool:
    return not video.paused and not video.ended


def pick_best_candidate(videos: Iterable, hovered=None, viewport: Tuple[int, int] = (0, 0),
                        playing_only: bool = False) -> Optional[object]:
    """
    Rank videos for a PiP action.

    The hovered video wins if it has not ended. Otherwise the playing video
    with the largest intrinsic area is chosen, falling back to the largest
    visible paused one. Videos without metadata or that have ended are
    never candidates.
    """
    if hovered is not None and not playing_only and not hovered.ended:
        return hovered

    candidates = [v for v in videos if v.ready_state > 0 and not v.ended]

    playing = [v for v in candidates if not v.paused]
    if playing:
        return max(playing, key=intrinsic_area)
    if playing_only:
        return None

    visible = [v for v in candidates if is_visible(v, viewport)]
    if visible:
        return max(visible, key=intrinsic_area)
    return None


def find_video_at(videos: Iterable, x: float, y: float) -> Optional[object]:
    """First video whose rect contains the point"""
    for video in videos:
        rect = _rect(video)
        if rect is not None and rect.contains(x, y):
            return video
    return None
