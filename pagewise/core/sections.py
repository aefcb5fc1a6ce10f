from enum import Enum
from dataclasses import dataclass, field


class SectionKind(str, Enum):
    CONFIGURED = "configured"   # from the document outline or synthesized defaults
    DYNAMIC = "dynamic"         # created at runtime from a detected heading


@dataclass
class Section:
    """A page-bounded logical region of the document."""
    id: str
    title: str
    start_page: int
    end_page: int
    level: int = 1
    children: list["Section"] = field(default_factory=list)
    kind: SectionKind = SectionKind.CONFIGURED

    @property
    def is_dynamic(self) -> bool:
        return self.kind == SectionKind.DYNAMIC

    @property
    def page_ids(self) -> list[int]:
        return list(range(self.start_page, max(self.start_page, self.end_page) + 1))

    def to_dict(self, with_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "start_page": self.start_page,
            "end_page": self.end_page,
            "level": self.level,
            "kind": self.kind.value,
            "is_dynamic": self.is_dynamic,
        }
        if with_children:
            data["children"] = [c.to_dict() for c in self.children]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Section":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            start_page=int(data["start_page"]),
            end_page=int(data.get("end_page", data["start_page"])),
            level=int(data.get("level", 1)),
            children=[cls.from_dict(c) for c in data.get("children", [])],
            kind=SectionKind(data.get("kind", SectionKind.CONFIGURED.value)),
        )


def flatten_sections(sections: list[Section]) -> list[Section]:
    """Pre-order walk of a section tree."""
    result: list[Section] = []
    for section in sections:
        result.append(section)
        if section.children:
            result.extend(flatten_sections(section.children))
    return result
