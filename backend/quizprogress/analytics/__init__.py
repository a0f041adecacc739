"""Pure time-window filtering and aggregation for the progress screen."""
