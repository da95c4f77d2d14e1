"""
Management command to seed a demo company with customers, products, inventory, orders and payments
Usage: python manage.py seed_demo_data [--customers 20] [--products 15] [--orders 120] [--clear]
"""
import random
import uuid
from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from storeadmin.sales.models import Company, Customer, Product, Inventory, Order, Payment

FIRST_NAMES = ['Ava', 'Liam', 'Noah', 'Emma', 'Mia', 'Lucas', 'Zoe', 'Ethan', 'Isla', 'Omar', 'Priya', 'Kenji']
LAST_NAMES = ['Smith', 'Patel', 'Garcia', 'Nguyen', 'Kim', 'Brown', 'Lopez', 'Sato', 'Khan', 'Müller']
PRODUCT_NAMES = [
    'Wireless Mouse', 'Mechanical Keyboard', 'USB-C Hub', 'Laptop Stand', 'Webcam HD',
    'Noise Cancelling Headphones', 'Bluetooth Speaker', 'Phone Case', 'Charging Cable',
    'Portable SSD', 'Desk Lamp', 'Monitor Arm', 'Smart Watch', 'Fitness Band', 'Power Bank',
]
LOCATIONS = ['Main Warehouse', 'Store Front', 'Overflow']
ORDER_STATUSES = ['pending', 'processing', 'shipped', 'delivered', 'delivered', 'delivered', 'cancelled']
PAYMENT_METHODS = ['credit_card', 'credit_card', 'debit_card', 'paypal', 'bank_transfer', 'cash']


class Command(BaseCommand):
    help = 'Seed a demo company with report data (customers, products, inventory, orders, payments)'

    def add_arguments(self, parser):
        parser.add_argument('--company', type=str, default='Demo Store', help='Company name (default: Demo Store)')
        parser.add_argument('--customers', type=int, default=20)
        parser.add_argument('--products', type=int, default=15)
        parser.add_argument('--orders', type=int, default=120)
        parser.add_argument('--days', type=int, default=90, help='Spread orders over the last N days')
        parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible data')
        parser.add_argument('--clear', action='store_true', help='Delete the company and its data first')

    def handle(self, *args, **options):
        rng = random.Random(options['seed'])
        company_name = options['company']
        now = timezone.now()

        with transaction.atomic():
            if options['clear']:
                deleted, _ = Company.objects.filter(name=company_name).delete()
                self.stdout.write(self.style.WARNING(f"Deleted {deleted} existing record(s) for '{company_name}'"))

            company, created = Company.objects.get_or_create(
                name=company_name,
                defaults={'email': 'contact@demo-store.example', 'phone': '5550100000'},
            )
            if not created:
                self.stdout.write(self.style.WARNING(f"Company '{company_name}' already exists, adding more data"))

            customers = []
            for i in range(options['customers']):
                first = rng.choice(FIRST_NAMES)
                last = rng.choice(LAST_NAMES)
                customers.append(Customer.objects.create(
                    company=company,
                    name=f"{first} {last}",
                    email=f"{first.lower()}.{last.lower()}.{uuid.uuid4().hex[:6]}@example.com",
                    phone=f"555{rng.randint(1000000, 9999999)}",
                    created_at=now - timedelta(days=rng.randint(options['days'], options['days'] + 365)),
                ))

            products = []
            for i in range(options['products']):
                name = PRODUCT_NAMES[i % len(PRODUCT_NAMES)]
                product = Product.objects.create(
                    company=company,
                    sku=f"SKU-{uuid.uuid4().hex[:8].upper()}",
                    name=name,
                    price=Decimal(str(rng.randint(5, 300))) + Decimal('0.99'),
                )
                Inventory.objects.create(
                    product=product,
                    quantity=rng.randint(0, 60),
                    location=rng.choice(LOCATIONS),
                    last_restock_date=now - timedelta(days=rng.randint(1, 45)),
                )
                products.append(product)

            payment_count = 0
            for i in range(options['orders']):
                items = rng.sample(products, k=min(len(products), rng.randint(1, 3))) if products else []
                total = sum((p.price * rng.randint(1, 3) for p in items), Decimal('0.00'))
                created_at = now - timedelta(days=rng.randint(0, options['days']), minutes=rng.randint(0, 1439))
                order = Order.objects.create(
                    company=company,
                    customer=rng.choice(customers) if customers else None,
                    order_number=f"ORD-{created_at:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}",
                    status=rng.choice(ORDER_STATUSES),
                    total=total,
                    created_at=created_at,
                )
                if order.status != 'cancelled':
                    Payment.objects.create(
                        order=order,
                        amount=total,
                        payment_method=rng.choice(PAYMENT_METHODS),
                        payment_date=created_at + timedelta(minutes=rng.randint(1, 120)),
                        status='completed' if order.status != 'pending' else 'pending',
                        transaction_id=f"TXN-{uuid.uuid4().hex[:12].upper()}",
                    )
                    payment_count += 1

        self.stdout.write(self.style.SUCCESS(
            f"Seeded '{company.name}': {len(customers)} customers, {len(products)} products, "
            f"{options['orders']} orders, {payment_count} payments"
        ))
