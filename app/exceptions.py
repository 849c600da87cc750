# ============================
# 📁 app/exceptions.py
# (Fehler-Taxonomie; Handler in app/main.py übersetzen sie in HTTP-Antworten)


class CMSException(Exception):
    """Basis-Fehler der Anwendung, trägt HTTP-Code und optionales Payload."""

    def __init__(self, message, code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv["message"] = self.message
        return rv


class NotFoundError(CMSException):
    def __init__(self, message="Not found", payload=None):
        super().__init__(message, code=404, payload=payload)


class ValidationError(CMSException):
    """Unvollständige oder ungültige Eingabe (400)."""

    def __init__(self, message="Invalid data", payload=None):
        super().__init__(message, code=400, payload=payload)


class DuplicateError(CMSException):
    """Eindeutigkeits-Verletzung im Storage (Slug, Username, E-Mail, ...)."""

    def __init__(self, entity: str, field: str, value):
        super().__init__(
            f"{entity} with {field} '{value}' already exists",
            code=409,
            payload={"field": field},
        )
        self.entity = entity
        self.field = field
        self.value = value
