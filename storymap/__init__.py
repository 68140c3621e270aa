"""storymap — cinematic journey maps."""
