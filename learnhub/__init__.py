"""LearnHub API: enrollment progress tracking and AI assistant streaming."""
