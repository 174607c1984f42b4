"""
Sample stores and inventory used to seed the in-memory backend.

Inventory rows reference stores by their position in SAMPLE_STORES.
"""

SAMPLE_STORES = [
    {
        "name": "7-Eleven",
        "address": "123 Main St, Anytown, USA",
        "latitude": 40.7128,
        "longitude": -74.0060,
        "phone": "(555) 123-4567",
    },
    {
        "name": "Circle K",
        "address": "456 Oak Ave, Somewhere, USA",
        "latitude": 40.7580,
        "longitude": -73.9855,
        "phone": "(555) 987-6543",
    },
    {
        "name": "Wawa",
        "address": "789 Pine Rd, Elsewhere, USA",
        "latitude": 40.7282,
        "longitude": -74.0776,
        "phone": "(555) 456-7890",
    },
    {
        "name": "QuikTrip",
        "address": "321 Elm St, Anywhere, USA",
        "latitude": 40.7505,
        "longitude": -73.9934,
        "phone": "(555) 234-5678",
    },
    {
        "name": "Speedway",
        "address": "654 Maple Dr, Nowhere, USA",
        "latitude": 40.7614,
        "longitude": -73.9776,
        "phone": "(555) 345-6789",
    },
]

# (store index, drink_id, size, price, in_stock, updated_by)
SAMPLE_INVENTORY = [
    (0, "monster-original", "16oz", 2.99, True, "Store Manager"),
    (0, "monster-ultra-zero", "16oz", 2.99, True, "Store Manager"),
    (0, "monster-ultra-red", "16oz", 2.99, False, "Store Manager"),
    (0, "monster-pipeline-punch", "16oz", 3.29, True, "Store Manager"),
    (1, "monster-original", "16oz", 2.89, True, "Assistant Manager"),
    (1, "monster-ultra-blue", "16oz", 2.89, True, "Assistant Manager"),
    (1, "monster-assault", "16oz", 2.89, True, "Assistant Manager"),
    (1, "monster-mango-loco", "16oz", 3.19, False, "Assistant Manager"),
    (2, "monster-original", "16oz", 3.09, True, "Energy Enthusiast"),
    (2, "monster-ultra-sunrise", "16oz", 3.09, True, "Energy Enthusiast"),
    (2, "monster-ultra-paradise", "16oz", 3.09, True, "Energy Enthusiast"),
    (2, "monster-pacific-punch", "16oz", 3.39, True, "Energy Enthusiast"),
    (3, "monster-original", "24oz", 3.99, True, "QT Employee"),
    (3, "monster-ultra-zero", "24oz", 3.99, True, "QT Employee"),
    (3, "monster-ultra-black", "16oz", 2.99, False, "QT Employee"),
    (3, "monster-rehab-tea-lemonade", "16oz", 3.49, True, "QT Employee"),
    (4, "monster-original", "16oz", 2.95, True, "Night Shift"),
    (4, "monster-ultra-red", "16oz", 2.95, True, "Night Shift"),
    (4, "monster-ultra-blue", "16oz", 2.95, True, "Night Shift"),
    (4, "monster-pipeline-punch", "24oz", 3.79, False, "Night Shift"),
]
