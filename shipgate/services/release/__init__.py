"""Release bounded context: run state machine, persistence and use cases."""
