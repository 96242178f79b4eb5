from django.core.management.base import BaseCommand, CommandError

from desk_core.models import Tenant
from desk_core.workflows.snapshots import backfill_missing_snapshots


class Command(BaseCommand):
    help = "Attach the current workflow snapshot to tickets that have none (safe to re-run)"

    def add_arguments(self, parser):
        parser.add_argument("--tenant", help="Tenant code; all tenants when omitted")
        parser.add_argument("--batch-size", type=int, default=None)

    def handle(self, *args, **options):
        tenant = None
        if options.get("tenant"):
            tenant = Tenant.objects.filter(code__iexact=options["tenant"]).first()
            if tenant is None:
                raise CommandError(f"Unknown tenant: {options['tenant']}")

        result = backfill_missing_snapshots(tenant, batch_size=options.get("batch_size"))
        self.stdout.write(
            self.style.SUCCESS(
                "Backfill done: scanned={scanned} updated={updated} skipped={skipped}".format(**result)
            )
        )
