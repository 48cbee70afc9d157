from . import content, exam, generation, jobs, knowledge, status

__all__ = ["content", "exam", "generation", "jobs", "knowledge", "status"]
