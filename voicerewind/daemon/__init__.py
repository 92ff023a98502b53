"""The VoiceRewind daemon: control channel, conversational turns and wake capture."""
