from order_tracking.services.access_guard import AccessDecision
from order_tracking.services.auth import (
    AdminIdentity,
    CourierIdentity,
    CustomerIdentity,
    RestaurantIdentity,
)


async def test_customer_owns_order(guard, seed):
    owner, stranger = await seed.user(), await seed.user(name="Bo")
    order = await seed.order(owner.id)

    assert await guard.check(CustomerIdentity(owner.id), order.id) == AccessDecision(True)
    assert await guard.check(CustomerIdentity(stranger.id), order.id) == AccessDecision(
        False, "Not your order"
    )


async def test_admin_always_authorized(guard, seed):
    order = await seed.order((await seed.user()).id, restaurant_id=99)
    decision = await guard.check(AdminIdentity(12345), order.id)
    assert decision.authorized


async def test_courier_needs_assignment(guard, seed):
    customer = await seed.user()
    assigned, other = await seed.courier(), await seed.courier(name="Mina")
    order = await seed.order(customer.id, courier_id=assigned.id)
    unassigned = await seed.order(customer.id)

    assert (await guard.check(CourierIdentity(assigned.id, assigned.id), order.id)).authorized
    assert await guard.check(CourierIdentity(other.id, other.id), order.id) == AccessDecision(
        False, "Not assigned to you"
    )
    denied = await guard.check(CourierIdentity(assigned.id, assigned.id), unassigned.id)
    assert denied.reason == "Not assigned to you"


async def test_restaurant_scoped_to_its_orders(guard, seed):
    order = await seed.order((await seed.user()).id, restaurant_id=7)

    assert await guard.check(RestaurantIdentity(1, 5), order.id) == AccessDecision(
        False, "Not your restaurant's order"
    )
    assert (await guard.check(RestaurantIdentity(1, 7), order.id)).authorized


async def test_missing_order(guard):
    assert await guard.check(AdminIdentity(1), 404) == AccessDecision(False, "Order not found")


async def test_unrecognised_identity(guard, seed):
    order = await seed.order((await seed.user()).id)
    decision = await guard.check(object(), order.id)
    assert decision == AccessDecision(False, "Unauthorized role")
