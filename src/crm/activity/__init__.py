"""Activity module -- customer timelines, tasks, and the audit log."""
