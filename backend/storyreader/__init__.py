"""Graded-story reader backend: word knowledge, narration cache and story assembly."""
