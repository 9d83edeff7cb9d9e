"""Release Manager Pipeline - Process entry points and background workers."""
