"""Session state machine: shared decisions plus blocking and asyncio drivers."""
