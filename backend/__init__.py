"""Plot rendering for metabolism runs."""
