"""
browser/types.py — Snapshot and Tab Models

What the sensor reports about the page. Quick snapshots are cheap and
partial; full snapshots carry everything the oracle might need.
"""

from __future__ import annotations

from typing import Union

from pydantic import BaseModel, Field


class Link(BaseModel):
    text: str = ""
    href: str = ""


class Button(BaseModel):
    text: str = ""
    type: str = ""
    role: str = ""


class InputField(BaseModel):
    type: str = ""
    placeholder: str = ""
    name: str = ""
    id: str = ""
    label: str = ""

    @property
    def display_name(self) -> str:
        return self.label or self.placeholder or self.name or self.id or "(unlabelled)"


class Heading(BaseModel):
    level: str = ""
    text: str = ""


class QuickSnapshot(BaseModel):
    url: str = ""
    title: str = ""
    links: list[Link] = Field(default_factory=list)
    buttons: list[str] = Field(default_factory=list)


class FullSnapshot(BaseModel):
    url: str = ""
    title: str = ""
    text: str = ""
    links: list[Link] = Field(default_factory=list)
    buttons: list[Button] = Field(default_factory=list)
    inputs: list[InputField] = Field(default_factory=list)
    headings: list[Heading] = Field(default_factory=list)
    lists: list[list[str]] = Field(default_factory=list)
    tables: list[list[list[str]]] = Field(default_factory=list)


Snapshot = Union[QuickSnapshot, FullSnapshot]


class TabInfo(BaseModel):
    id: int                 # 1-based position in the tab strip
    title: str = ""
    url: str = ""
    is_active: bool = False
