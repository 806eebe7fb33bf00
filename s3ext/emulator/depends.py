from typing import Annotated, Any, Callable

from fastapi import Depends, FastAPI

_providers: dict[Any, Callable[[], Any]] = {}


def _provider(tp: Any) -> Callable[[], Any]:
    if tp not in _providers:

        def unbound() -> Any:
            raise RuntimeError(f"nothing bound for {tp.__name__}")

        _providers[tp] = unbound
    return _providers[tp]


class Injected:
    """``Injected[T]`` resolves to whatever ``bind(app, T, value)`` registered."""

    def __class_getitem__(cls, tp: Any) -> Any:
        return Annotated[tp, Depends(_provider(tp))]


def bind(app: FastAPI, tp: Any, value: Any) -> None:
    app.dependency_overrides[_provider(tp)] = lambda: value
