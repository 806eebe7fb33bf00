"""In-process stand-in for an ECS S3 endpoint, for tests and local development."""
