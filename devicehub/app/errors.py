"""
Device registry error taxonomy.

The registry never retries; it raises one of these and the routers turn
them into JSON error bodies.
"""


class RegistryError(Exception):
    code = "registry_error"

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"message": self.message, "code": self.code}


class NotFound(RegistryError):
    code = "not_found"


class PreconditionFailed(RegistryError):
    code = "precondition_failed"
