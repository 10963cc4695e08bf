"""Client-side snapshot timeline: index loading, content cache, prefetch and playback."""
