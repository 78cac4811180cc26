"""Language-model clients behind one async adapter interface."""
