"""Stats-run scheduling for backup repositories."""
