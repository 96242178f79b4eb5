# desk_core/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Keep workflow-controlled ticket fields out of reach of plain .save().

    - WORKFLOW_FIELD (status) may only change through the workflow service.
    - FROZEN_FIELDS (the workflow snapshot) may be written once, while still
      null, and never changed afterwards.

    Escape hatch:
      - pass _workflow_bypass=True to save(), OR
      - set instance._workflow_bypass = True
    The bypass only lifts the status check; frozen fields stay frozen.
    """

    WORKFLOW_FIELD = "status"
    FROZEN_FIELDS = ("workflow_snapshot", "workflow_version")
    WORKFLOW_BYPASS_KWARG = "_workflow_bypass"

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        bypass = bool(
            kwargs.pop(self.WORKFLOW_BYPASS_KWARG, False)
            or getattr(self, "_workflow_bypass", False)
        )

        if self.pk is not None and not self._state.adding:
            fields = [f for f in (self.WORKFLOW_FIELD, *self.FROZEN_FIELDS) if f]
            stored = self.__class__.objects.filter(pk=self.pk).values(*fields).first()

            if stored is not None:
                if not bypass and self.WORKFLOW_FIELD:
                    if stored[self.WORKFLOW_FIELD] != getattr(self, self.WORKFLOW_FIELD, None):
                        raise PermissionDenied(
                            f"Direct modification of '{self.WORKFLOW_FIELD}' is forbidden. "
                            "Use workflow transition APIs."
                        )

                for name in self.FROZEN_FIELDS:
                    old = stored[name]
                    if old is not None and old != getattr(self, name, None):
                        raise PermissionDenied(
                            f"'{name}' is frozen once set and cannot be modified."
                        )

        return super().save(*args, **kwargs)
