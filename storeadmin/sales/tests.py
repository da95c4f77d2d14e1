"""
Test suite for Sales module
Tests: Report source models and the demo data seeder
"""
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from storeadmin.core.test_utils import TestDataFactory
from storeadmin.sales.models import Company, Customer, Product, Inventory, Order, Payment


class SalesModelTests(TestCase):

    def test_inventory_low_stock(self):
        """Test low stock means quantity below the reorder threshold"""
        product = TestDataFactory.create_product()
        self.assertTrue(TestDataFactory.create_inventory(product, quantity=4).is_low_stock)
        self.assertFalse(TestDataFactory.create_inventory(product, quantity=5).is_low_stock)

    def test_order_payments_relation(self):
        order = TestDataFactory.create_order()
        payment = TestDataFactory.create_payment(order)
        self.assertEqual(list(order.payments.all()), [payment])
        self.assertEqual(payment.amount, order.total)

    def test_deleting_customer_keeps_orders(self):
        """Test orders survive their customer being deleted"""
        customer = TestDataFactory.create_customer()
        order = TestDataFactory.create_order(customer=customer)
        customer.delete()
        order.refresh_from_db()
        self.assertIsNone(order.customer)


class SeedDemoDataTests(TestCase):

    def test_seed_demo_data(self):
        """Test the seeder creates the requested amounts"""
        out = StringIO()
        call_command('seed_demo_data', '--customers', '3', '--products', '4', '--orders', '10', '--seed', '7', stdout=out)

        company = Company.objects.get(name='Demo Store')
        self.assertEqual(Customer.objects.filter(company=company).count(), 3)
        self.assertEqual(Product.objects.filter(company=company).count(), 4)
        self.assertEqual(Inventory.objects.filter(product__company=company).count(), 4)
        self.assertEqual(Order.objects.filter(company=company).count(), 10)
        self.assertEqual(
            Payment.objects.filter(order__company=company).count(),
            Order.objects.filter(company=company).exclude(status='cancelled').count(),
        )
        self.assertIn("Seeded 'Demo Store'", out.getvalue())

    def test_seed_clear(self):
        """Test --clear replaces the company's data"""
        call_command('seed_demo_data', '--orders', '5', stdout=StringIO())
        call_command('seed_demo_data', '--orders', '2', '--clear', stdout=StringIO())
        self.assertEqual(Order.objects.filter(company__name='Demo Store').count(), 2)
