"""VidTube user accounts service."""
