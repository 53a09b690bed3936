"""Real-time multi-speaker recording and transcription server."""
