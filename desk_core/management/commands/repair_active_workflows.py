from django.core.management.base import BaseCommand

from desk_core.models import Tenant
from desk_core.workflows.store import repair_active_workflows


class Command(BaseCommand):
    help = "Ensure every tenant has exactly one ACTIVE workflow"

    def handle(self, *args, **options):
        for tenant in Tenant.objects.order_by("code"):
            result = repair_active_workflows(tenant)
            self.stdout.write(
                f"{tenant.code}: active={result['kept']} deactivated={result['deactivated']}"
            )
