"""Cinematic playback core — camera flights, orbit, audio crossfades and the reveal/journey state machine."""
