"""Open Source Cloud platform: instance provisioning and FFmpeg jobs."""
