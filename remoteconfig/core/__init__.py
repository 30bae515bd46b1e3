"""Template merge, validation and resolution."""

from remoteconfig.core.merge import merge
from remoteconfig.core.resolution import TemplateResolutionService
from remoteconfig.core.template_admin import TemplateAdminService
from remoteconfig.core.template_service import TemplateService
from remoteconfig.core.validation import validate_override_values

__all__ = [
    "merge",
    "TemplateResolutionService",
    "TemplateAdminService",
    "TemplateService",
    "validate_override_values",
]
