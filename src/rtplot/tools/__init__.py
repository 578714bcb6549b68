"""Development helpers such as the opt-in timing instrumentation."""
