"""Admin performance watcher: sampling, retention and reporting for admin requests."""
