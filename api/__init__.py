"""api/ -- HTTP surface for CourseGate (FastAPI app, transport models, routes)."""
