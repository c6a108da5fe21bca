"""OpticShop Django project package."""
