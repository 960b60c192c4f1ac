"""Client side of the shared board: CRUD client, realtime bridge, task list."""
