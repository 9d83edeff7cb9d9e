"""Release Manager Pipeline - API service.

FastAPI service that queues multipart uploads and reports upload job and
release status. Hosts the worker supervisor for the lifetime of the process.
"""

__all__: list[str] = []
