from django.core.management.base import BaseCommand, CommandError

from desk_core.models import Tenant
from desk_core.workflows.store import ensure_system_default_workflow


class Command(BaseCommand):
    help = "Create (or promote) the system default workflow for each tenant"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", help="Tenant code; all active tenants when omitted")

    def handle(self, *args, **options):
        qs = Tenant.objects.filter(is_active=True)
        if options.get("tenant"):
            qs = qs.filter(code__iexact=options["tenant"])
            if not qs.exists():
                raise CommandError(f"Unknown tenant: {options['tenant']}")

        for tenant in qs:
            wf, created = ensure_system_default_workflow(tenant)
            verb = "Created" if created else "Kept"
            self.stdout.write(f"{tenant.code}: {verb} system default workflow {wf.pk} ({wf.status})")
