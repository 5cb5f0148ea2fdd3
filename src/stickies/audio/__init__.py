"""Audio handling: validation, transcoding and transcription."""
