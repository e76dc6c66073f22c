from __future__ import annotations

import random

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.orders.checkout import CheckoutService
from modules.orders.dtos import CartItemDTO, CheckoutFormDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.store_settings.constants import DEFAULT_SETTINGS, SettingKey
from modules.store_settings.repositories.django_repository import (
    StoreSettingDjangoRepository,
)
from modules.store_settings.services import SettingsStore


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument(
            "--orders",
            type=int,
            default=10,
            help="Number of checkouts to run against the seeded catalogue.",
        )

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        settings_store = SettingsStore(StoreSettingDjangoRepository())
        users_created = self._seed_users()
        settings_written = self._seed_settings(settings_store)
        products = self._seed_products()
        orders_created = self._seed_orders(settings_store, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={users_created}, "
                f"settings={settings_written}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> int:
        User = get_user_model()
        created = 0
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
            created += 1
        if not User.objects.filter(username="manager").exists():
            User.objects.create_user("manager", password="manager123", is_staff=True)
            created += 1
        return created

    def _seed_settings(self, settings_store: SettingsStore) -> int:
        self.stdout.write("Writing store settings...")
        overrides = {
            SettingKey.STORE_NAME: "Demo Store",
            SettingKey.CONTACT_EMAIL: "hello@demo-store.test",
            SettingKey.FREE_SHIPPING_THRESHOLD: "10000",
        }
        for key, definition in DEFAULT_SETTINGS.items():
            settings_store.update_setting(key, overrides.get(key, definition.default))
        self.stdout.write(self.style.SUCCESS("Writing store settings... Done!"))
        return len(DEFAULT_SETTINGS)

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        # (name, price in cents, stock or None for unlimited, digital)
        catalog = [
            ("Ceramic Mug", 1800, 40, False),
            ("Linen Tote Bag", 2400, 25, False),
            ("Enamel Pin Set", 1200, 100, False),
            ("Hardcover Notebook", 1600, 60, False),
            ("Desk Plant", 3200, 8, False),
            ("Wool Beanie", 2800, 15, False),
            ("Poster A2", 2200, 3, False),
            ("Travel Candle", 1400, 0, False),
            ("Photo Preset Pack", 900, None, True),
            ("Recipe E-Book", 1500, None, True),
            ("Wallpaper Bundle", 500, None, True),
        ]
        for name, price, stock, is_digital in catalog:
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "description": f"{name} from the demo catalogue.",
                    "price": price,
                    "stock": stock,
                    "is_digital": is_digital,
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(
        self, settings_store: SettingsStore, products: list[Product], count: int
    ) -> int:
        self.stdout.write("Running checkouts...")
        checkout = CheckoutService(
            order_repository=OrderDjangoRepository(),
            product_repository=ProductDjangoRepository(),
            settings_store=settings_store,
        )
        address = ShippingAddressDTO(
            line1="1 Market Street",
            city="Springfield",
            postal_code="12345",
            country="US",
        )

        orders_created = 0
        for i in range(count):
            picked = random.sample(products, k=random.randint(1, 3))
            cart = [
                CartItemDTO(
                    id=str(product.id),
                    name=product.name,
                    price=product.price,
                    quantity=random.randint(1, 2),
                    is_digital=product.is_digital,
                )
                for product in picked
            ]
            form = CheckoutFormDTO(
                customer_name=f"Seed Customer {i + 1}",
                customer_email=f"customer{i + 1}@example.com",
                shipping_address=address,
            )
            result = checkout.process_checkout(form, cart, confirmed=True)
            if result.outcome == "success":
                orders_created += 1
            else:
                self.stdout.write(self.style.WARNING(f"Checkout skipped: {result.error}"))

        self.stdout.write(self.style.SUCCESS("Running checkouts... Done!"))
        return orders_created
