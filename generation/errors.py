"""
Pipeline exceptions.

SetupError and its subclasses are the only errors allowed to unwind out of a
generation run and fail its job. Everything else is handled per chunk, per
claim or per insert.
"""


class GenerationServiceError(Exception):
    """The generation service call failed (transport, timeout, empty content)."""


class SetupError(Exception):
    """A fault that prevents a generation run from starting."""
    status_code = 400
    job_id = None  # set once the failed job row exists


class MaterialNotFound(SetupError):
    status_code = 404

    def __init__(self, material_id: int):
        super().__init__(f"Material {material_id} not found")
        self.material_id = material_id


class AnalysisMissing(SetupError):
    def __init__(self, material_id: int):
        super().__init__("Material has not been analyzed yet")
        self.material_id = material_id


class NoTopicsFound(SetupError):
    def __init__(self, course_id: int):
        super().__init__("No topics found for this material")
        self.course_id = course_id


class NoTopicsMatched(SetupError):
    def __init__(self, topics_total: int):
        super().__init__(f"None of the {topics_total} topic(s) matched the material analysis")
        self.topics_total = topics_total


class JobStateError(Exception):
    """Illegal job state transition (e.g. leaving a terminal state)."""
