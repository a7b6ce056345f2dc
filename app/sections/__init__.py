"""Portfolio sections: typed content, dense ordering, owner CRUD."""

from app.sections.content import SECTION_TYPES, SectionType, parse_content
from app.sections.ordering import SectionOrdering

__all__ = ["SECTION_TYPES", "SectionOrdering", "SectionType", "parse_content"]
