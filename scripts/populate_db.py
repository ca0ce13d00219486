import os
import sys
import django
import random
from decimal import Decimal
from faker import Faker

# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up Django environment
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'preipo_marketplace.settings')
django.setup()

from trading.exceptions import MarketplaceError
from trading.identity import generate_username
from trading.lifecycle import boost_listing, create_listing
from trading.models import Company, User
from trading.negotiation import accept_bid, counter_bid, place_bid, reject_bid

fake = Faker('en_IN')

SECTORS = [
    'Fintech', 'E-commerce', 'Healthcare', 'EdTech', 'Logistics',
    'SaaS', 'Consumer', 'Energy', 'Banking', 'Mobility',
]

SEGMENTS = ['SME', 'Mainboard', 'Unlisted', 'Pre-IPO', 'Startup']


def create_users(num_users=20):
    print(f"Creating {num_users} users...")
    users = []

    for _ in range(num_users):
        user = User.objects.create_user(
            username=generate_username(),
            email=fake.unique.email(),
            password='password123',
            full_name=fake.name(),
            is_verified=random.choice([True, False])
        )
        users.append(user)

    print(f"Created {len(users)} users.")
    return users


def create_companies(num_companies=12):
    print("Creating companies...")
    companies = []

    for _ in range(num_companies):
        name = fake.unique.company()
        company = Company.objects.create(
            name=name,
            script_name=''.join(word[0] for word in name.split() if word)[:10].upper(),
            sector=random.choice(SECTORS),
            description=fake.paragraph(),
            website=fake.url(),
        )
        companies.append(company)

    print(f"Created {len(companies)} companies.")
    return companies


def create_listings(users, companies):
    print("Creating listings...")
    listings = []

    for user in users:
        # Each user posts 0-3 listings
        for _ in range(random.randint(0, 3)):
            quantity = random.randint(10, 1000)
            listing = create_listing(
                owner=user,
                listing_type=random.choice(['sell', 'buy']),
                company=random.choice(companies),
                price=Decimal(random.uniform(50.0, 2500.0)).quantize(Decimal('0.01')),
                quantity=quantity,
                min_lot=random.randint(1, max(1, quantity // 10)),
                description=fake.sentence(),
                company_segmentation=random.choice(SEGMENTS),
            )
            listings.append(listing)

            # 20% of listings are boosted
            if random.random() < 0.2:
                boost_listing(listing, user)

    print(f"Created {len(listings)} listings.")
    return listings


def create_negotiations(users, listings):
    print("Creating bids and offers...")
    placed = 0

    for listing in listings:
        counterparties = [user for user in users if user.id != listing.owner_id]
        for bidder in random.sample(counterparties, k=min(len(counterparties), random.randint(0, 4))):
            price = (listing.price * Decimal(random.uniform(0.85, 1.05))).quantize(Decimal('0.01'))
            quantity = random.randint(listing.min_lot, listing.quantity)
            bid = place_bid(listing, bidder, price, quantity, fake.sentence())
            placed += 1

            # Owner reacts to some bids
            try:
                outcome = random.random()
                if outcome < 0.2:
                    accept_bid(listing, bid['id'], listing.owner)
                elif outcome < 0.4:
                    reject_bid(listing, bid['id'], listing.owner)
                elif outcome < 0.6:
                    counter_bid(listing, bid['id'], listing.owner, listing.price, message=fake.sentence())
            except MarketplaceError as e:
                print(f"Skipped owner response: {e.message}")

    print(f"Created {placed} bids and offers.")


def main():
    print("Starting database population...")

    users = create_users(num_users=20)
    companies = create_companies(num_companies=12)
    listings = create_listings(users, companies)
    create_negotiations(users, listings)

    print("Database population completed successfully!")


if __name__ == '__main__':
    main()
