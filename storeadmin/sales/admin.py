from django.contrib import admin
from .models import Company, Customer, Product, Inventory, Order, Payment


@admin.register(Company)
class CompanyAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'phone', 'is_active', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'email']
    ordering = ['name']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'email', 'phone', 'company', 'is_active', 'created_at']
    list_filter = ['is_active', 'company', 'created_at']
    search_fields = ['name', 'phone', 'email']
    ordering = ['name']


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'sku', 'price', 'company', 'is_active']
    list_filter = ['is_active', 'company']
    search_fields = ['name', 'sku']
    ordering = ['name']


@admin.register(Inventory)
class InventoryAdmin(admin.ModelAdmin):
    list_display = ['product', 'location', 'quantity', 'reorder_threshold', 'reorder_amount', 'last_restock_date']
    list_filter = ['location']
    search_fields = ['product__name', 'product__sku']
    list_select_related = ['product']


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer', 'company', 'status', 'total', 'created_at']
    list_filter = ['status', 'company', 'created_at']
    search_fields = ['order_number', 'customer__name', 'customer__email']
    date_hierarchy = 'created_at'
    inlines = [PaymentInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['order', 'amount', 'payment_method', 'status', 'payment_date', 'transaction_id']
    list_filter = ['payment_method', 'status', 'payment_date']
    search_fields = ['order__order_number', 'transaction_id']
