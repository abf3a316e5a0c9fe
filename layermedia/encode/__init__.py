"""ffmpeg/ffprobe invocation, argument presets and single-output encoders."""
