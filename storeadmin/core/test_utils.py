"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from storeadmin.core.models import Setting, AuditLog
from storeadmin.sales.models import Company, Customer, Product, Inventory, Order, Payment
from decimal import Decimal
from django.utils import timezone
import random
import string
import uuid

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(username=None, email=None, password='testpass123', is_staff=False, is_superuser=False, phone=None):
        """Create a test user"""
        if not username:
            username = f'testuser_{TestDataFactory.random_string(6)}'
        if not email:
            email = f'{username}@test.com'
        return User.objects.create_user(
            username=username,
            email=email,
            password=password,
            is_staff=is_staff,
            is_superuser=is_superuser,
            phone=phone,
        )

    @staticmethod
    def create_admin(username=None, password='testpass123'):
        """Create a staff superuser"""
        return TestDataFactory.create_user(username=username, password=password, is_staff=True, is_superuser=True)

    @staticmethod
    def create_setting(key=None, value='value', description=''):
        if not key:
            key = f'setting_{TestDataFactory.random_string(6).lower()}'
        return Setting.objects.create(key=key, value=value, description=description)

    @staticmethod
    def create_audit_log(user=None, action='create', model_name='Setting', object_id='1', object_name=None):
        return AuditLog.objects.create(
            user=user,
            action=action,
            model_name=model_name,
            object_id=object_id,
            object_name=object_name,
            changes={},
        )

    @staticmethod
    def create_company(name=None):
        """Create a test company"""
        if not name:
            name = f'Company_{TestDataFactory.random_string(6)}'
        return Company.objects.create(name=name, email=f'{name.lower()}@test.com', phone='1234567890')

    @staticmethod
    def create_customer(name=None, company=None, email=None, phone=None, created_at=None):
        """Create a test customer"""
        if not name:
            name = f'Customer_{TestDataFactory.random_string(6)}'
        return Customer.objects.create(
            company=company,
            name=name,
            email=email or f'{name.lower()}@test.com',
            phone=phone or '1234567890',
            created_at=created_at or timezone.now(),
        )

    @staticmethod
    def create_product(name=None, sku=None, price=None, company=None):
        """Create a test product"""
        if not name:
            name = f'Product_{TestDataFactory.random_string(6)}'
        if not sku:
            sku = f'SKU-{TestDataFactory.random_string(8).upper()}'
        return Product.objects.create(
            company=company,
            name=name,
            sku=sku,
            price=price if price is not None else Decimal('100.00'),
        )

    @staticmethod
    def create_inventory(product, quantity=20, reorder_threshold=5, reorder_amount=10, location='Main Warehouse'):
        """Create an inventory record for a product"""
        return Inventory.objects.create(
            product=product,
            quantity=quantity,
            reorder_threshold=reorder_threshold,
            reorder_amount=reorder_amount,
            location=location,
            last_restock_date=timezone.now(),
        )

    @staticmethod
    def create_order(customer=None, company=None, total=None, status='delivered', created_at=None, order_number=None):
        """Create a test order"""
        if not order_number:
            order_number = f'ORD-{uuid.uuid4().hex[:10].upper()}'
        return Order.objects.create(
            company=company,
            customer=customer,
            order_number=order_number,
            status=status,
            total=total if total is not None else Decimal('100.00'),
            created_at=created_at or timezone.now(),
        )

    @staticmethod
    def create_payment(order, amount=None, payment_method='credit_card', status='completed', payment_date=None):
        """Create a payment for an order"""
        return Payment.objects.create(
            order=order,
            amount=amount if amount is not None else order.total,
            payment_method=payment_method,
            payment_date=payment_date or timezone.now(),
            status=status,
            transaction_id=f'TXN-{uuid.uuid4().hex[:12].upper()}',
        )


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a user"""
        refresh = RefreshToken.for_user(user)
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
