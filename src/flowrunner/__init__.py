"""flowrunner: browser automation graphs, run on demand or on a schedule."""
