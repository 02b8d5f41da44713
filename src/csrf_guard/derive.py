"""
``with_csrf_token``: make a pydantic form model a CSRF token source.

    @with_csrf_token
    class LoginForm(BaseModel):
        name: str

adds a required ``csrf_token: str`` field. With ``field_name="..."`` the token
lives in that field instead and a read-only ``csrf_token`` property points at
it. A field that is already declared under the chosen name is reused as long
as it is a ``str``.
"""

from pydantic import BaseModel, create_model

DEFAULT_CSRF_FIELD_NAME = "csrf_token"


def _decorate(model: type[BaseModel], field_name: str) -> type[BaseModel]:
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise TypeError("with_csrf_token can only decorate pydantic models")

    existing = model.model_fields.get(field_name)
    if existing is not None and existing.annotation is not str:
        raise TypeError(f"{model.__name__}.{field_name} must be annotated as str")
    if field_name != DEFAULT_CSRF_FIELD_NAME and DEFAULT_CSRF_FIELD_NAME in model.model_fields:
        raise TypeError(
            f"{model.__name__} already has a {DEFAULT_CSRF_FIELD_NAME!r} field; "
            f"cannot alias it to {field_name!r}"
        )

    if existing is None:
        qualname = model.__qualname__
        model = create_model(
            model.__name__,
            __base__=model,
            __module__=model.__module__,
            __doc__=model.__doc__,
            **{field_name: (str, ...)},
        )
        model.__qualname__ = qualname

    if field_name != DEFAULT_CSRF_FIELD_NAME:
        setattr(
            model,
            DEFAULT_CSRF_FIELD_NAME,
            property(
                lambda self: getattr(self, field_name),
                doc=f"CSRF token submitted in the {field_name!r} field.",
            ),
        )
    return model


def with_csrf_token(cls: type[BaseModel] | None = None, *, field_name: str = DEFAULT_CSRF_FIELD_NAME):
    """Class decorator; usable bare or as ``@with_csrf_token(field_name=...)``."""
    if cls is None:
        return lambda model: _decorate(model, field_name)
    return _decorate(cls, field_name)
