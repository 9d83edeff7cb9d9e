"""Release Manager Pipeline - Upload job scheduler."""
