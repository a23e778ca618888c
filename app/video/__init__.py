"""Video generation jobs: provider adapters and normalized job types."""
