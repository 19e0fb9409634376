from django.core.management.base import BaseCommand, CommandError

from stock.services.query_service import StockQueryService


class Command(BaseCommand):
    help = 'Compare cached stock balances with the signed sum of their movements'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fail-on-drift',
            action='store_true',
            help='Exit with an error when any balance disagrees with the movement log'
        )

    def handle(self, *args, **options):
        drift = StockQueryService.find_balance_drift()

        if not drift:
            self.stdout.write(self.style.SUCCESS('Stock ledger is consistent'))
            return

        for row in drift:
            self.stdout.write(
                f"item={row['item_id']} ({row['item_code'] or '?'}) "
                f"warehouse={row['warehouse_id']} ({row['warehouse_code'] or '?'}): "
                f"cached={row['cached']} movements={row['from_movements']}"
            )

        message = f'{len(drift)} balance(s) drift from the movement log'
        if options['fail_on_drift']:
            raise CommandError(message)
        self.stdout.write(self.style.WARNING(message))
