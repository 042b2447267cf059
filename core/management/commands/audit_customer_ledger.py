"""
Management command: compare each customer's order_count/total_spent with the
non-deleted orders linked to it. Reports drift; --fix overwrites the stored totals.
Safe to run multiple times.
"""
from django.core.management.base import BaseCommand

from core import ledger


class Command(BaseCommand):
    help = 'Report (and optionally repair) customers whose totals disagree with their orders'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Overwrite drifting totals with the values recomputed from orders',
        )

    def handle(self, *args, **options):
        drift = ledger.audit(fix=options['fix'])
        if not drift:
            self.stdout.write(self.style.SUCCESS('All customer totals match their orders.'))
            return
        for row in drift:
            self.stdout.write(
                f"customer={row['customer_id']} phone={row['phone']} "
                f"orders {row['order_count']} -> {row['expected_count']}, "
                f"spent {row['total_spent']} -> {row['expected_spent']}"
            )
        if options['fix']:
            self.stdout.write(self.style.SUCCESS(f'Repaired {len(drift)} customer(s).'))
        else:
            self.stdout.write(self.style.WARNING(f'{len(drift)} customer(s) drifted; rerun with --fix to repair.'))
