"""Release Manager Pipeline - Worker supervisor."""
