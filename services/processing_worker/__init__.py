"""Release Manager Pipeline - Release processing scheduler."""
