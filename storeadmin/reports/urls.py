from django.urls import path
from . import views

urlpatterns = [
    path('reports/sales/', views.sales_report, name='sales-report'),
    path('reports/inventory/', views.inventory_report, name='inventory-report'),
    path('reports/customers/', views.customer_report, name='customer-report'),
    path('reports/payments/', views.payment_report, name='payment-report'),
    path('reports/exports/', views.export_list, name='report-export-list'),
    path('reports/exports/<str:filename>/', views.export_detail, name='report-export-detail'),
]
