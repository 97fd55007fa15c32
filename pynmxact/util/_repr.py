# Copyright (c) 2026 pynmxact contributors
# This software is distributed under the terms of the MIT License.


def repr_attributes(obj: object, *anonymous_elements: object, **named_elements: object) -> str:
    """
    Constructs a :func:`repr` form of an object from the supplied elements. Used widely across the library.
    Values are rendered with :func:`str`, so callers wrap strings in :func:`repr` where quotes are wanted.

    >>> class Session: pass
    >>> repr_attributes(Session())
    'Session()'
    >>> repr_attributes(Session(), "can0", mtu=256)
    'Session(can0, mtu=256)'
    >>> repr_attributes(Session(), bus=repr("can0"), open=False)
    "Session(bus='can0', open=False)"
    """
    fld = list(map(str, anonymous_elements)) + list(f"{name}={value}" for name, value in named_elements.items())
    return f"{type(obj).__name__}(" + ", ".join(fld) + ")"


def repr_attributes_noexcept(obj: object, *anonymous_elements: object, **named_elements: object) -> str:
    """
    A version of :func:`repr_attributes` that never raises; safe to use from ``__repr__`` and log statements.

    >>> class Transport: pass
    >>> class Broken:
    ...     def __repr__(self) -> str:
    ...         raise ValueError("no repr")
    ...     __str__ = __repr__
    >>> repr_attributes_noexcept(Transport(), mtu=256)
    'Transport(mtu=256)'
    >>> repr_attributes_noexcept(Transport(), peer=Broken())
    "<REPR FAILED: ValueError('no repr')>"
    """
    try:
        return repr_attributes(obj, *anonymous_elements, **named_elements)
    except Exception as ex:
        # noinspection PyBroadException
        try:
            return f"<REPR FAILED: {ex!r}>"
        except Exception:
            return "<REPR FAILED: UNKNOWN ERROR>"
