"""Unit tests for multipart image uploads on create and update routes.

Routes are exercised through TestClient with services patched in their API
modules; one test wires a real MediaService over httpx.MockTransport.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import httpx
import pytest

from marketplace.api.uploads import MAX_IMAGE_BYTES
from marketplace.config import Settings
from marketplace.models.ad import Ad
from marketplace.models.category import Category, CategoryRef
from marketplace.models.product import Product, PublisherRef
from marketplace.models.user import Role
from marketplace.services.media_service import MediaService

KEPT = "https://res.cloudinary.com/demo/image/upload/v1/marketplace/products/kept.jpg"
UPLOADED = "https://res.cloudinary.com/demo/image/upload/v9/marketplace/ads/new.jpg"
PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _png(name="photo.png", content=PNG, content_type="image/png"):
    return (name, content, content_type)


def _listing_form(**overrides):
    form = {
        "title": "Yamaha MT-07",
        "category": str(uuid4()),
        "description": "Well kept, full service history",
        "price": "6500",
        "condition": "excellent",
        "year": "2019",
        "kilometrage": "21000",
        "cylinder": "689",
        "location": "Tunis",
    }
    form.update(overrides)
    return form


def _make_product(publisher_id, images):
    now = datetime.now(timezone.utc)
    return Product(
        id=uuid4(),
        title="Yamaha MT-07",
        description="Well kept",
        price=6500.0,
        condition="excellent",
        year=2019,
        kilometrage=21000,
        cylinder=689,
        images=images,
        location="Tunis",
        category=CategoryRef(id=uuid4(), name="Roadsters", slug="roadsters"),
        publisher=PublisherRef(id=publisher_id, first_name="Jane", last_name="Doe"),
        created_at=now,
        updated_at=now,
    )


def _make_ad(created_by, image=UPLOADED):
    now = datetime.now(timezone.utc)
    return Ad(
        id=uuid4(),
        title="Spring sale",
        description="20% off helmets",
        image=image,
        start_date=now,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def product_services():
    with (
        patch("marketplace.api.products.ProductService") as MockProductService,
        patch("marketplace.api.products.CategoryService") as MockCategoryService,
        patch("marketplace.api.products.MediaService") as MockMediaService,
    ):
        products = MockProductService.return_value
        media = MockMediaService.return_value
        MockCategoryService.return_value.get_by_id = AsyncMock(return_value=MagicMock())
        media.upload_images = AsyncMock(
            side_effect=lambda images, folder: [
                f"https://res.cloudinary.com/demo/image/upload/v2/{folder}/{i.filename}"
                for i in images
            ]
        )
        media.delete_images = AsyncMock(return_value=0)
        yield products, media


@pytest.fixture
def ad_services():
    with (
        patch("marketplace.api.ads.AdService") as MockAdService,
        patch("marketplace.api.ads.MediaService") as MockMediaService,
    ):
        media = MockMediaService.return_value
        media.upload_images = AsyncMock(return_value=[UPLOADED])
        media.delete_image = AsyncMock(return_value=True)
        yield MockAdService.return_value, media


@pytest.fixture
def as_admin(authenticate, make_user):
    return authenticate(make_user(role=Role.ADMIN))


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

class TestProductUploads:

    def test_create_with_files_and_kept_url(self, client, product_services, authenticate, make_user):
        products, media = product_services
        user = authenticate(make_user())
        products.create = AsyncMock(return_value=_make_product(user.id, [KEPT]))

        response = client.post(
            "/products",
            data={**_listing_form(), "images": [KEPT]},
            files=[("images", _png("front.png")), ("images", _png("side.png"))],
        )

        assert response.status_code == 201, response.text
        images, folder = media.upload_images.call_args.args
        assert folder == "products"
        assert [i.filename for i in images] == ["front.png", "side.png"]
        assert images[0].content == PNG
        assert images[0].content_type == "image/png"

        created = products.create.call_args.args[0]
        assert created.images == [
            KEPT,
            "https://res.cloudinary.com/demo/image/upload/v2/products/front.png",
            "https://res.cloudinary.com/demo/image/upload/v2/products/side.png",
        ]
        assert created.price == 6500
        assert created.year == 2019

    def test_files_alone_satisfy_required_images(self, client, product_services, authenticate, make_user):
        products, _ = product_services
        user = authenticate(make_user())
        products.create = AsyncMock(return_value=_make_product(user.id, [KEPT]))

        response = client.post(
            "/products", data=_listing_form(), files=[("images", _png())]
        )

        assert response.status_code == 201, response.text

    def test_too_many_files(self, client, product_services, authenticate, make_user):
        _, media = product_services
        authenticate(make_user())

        response = client.post(
            "/products",
            data=_listing_form(),
            files=[("images", _png(f"{n}.png")) for n in range(11)],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Too many files uploaded. Maximum is 10 files."
        media.upload_images.assert_not_called()

    def test_kept_urls_count_toward_limit(self, client, product_services, authenticate, make_user):
        _, media = product_services
        authenticate(make_user())

        response = client.post(
            "/products",
            data={**_listing_form(), "images": [KEPT] * 8},
            files=[("images", _png(f"{n}.png")) for n in range(3)],
        )

        assert response.status_code == 400
        assert "images" in response.json()["message"]
        media.upload_images.assert_not_called()

    def test_non_image_rejected(self, client, product_services, authenticate, make_user):
        _, media = product_services
        authenticate(make_user())

        response = client.post(
            "/products",
            data=_listing_form(),
            files=[("images", ("notes.pdf", b"%PDF-1.7", "application/pdf"))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Only image files are allowed"
        media.upload_images.assert_not_called()

    def test_oversized_file_rejected(self, client, product_services, authenticate, make_user):
        _, media = product_services
        authenticate(make_user())

        response = client.post(
            "/products",
            data=_listing_form(),
            files=[("images", _png(content=b"\x00" * (MAX_IMAGE_BYTES + 1)))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "File too large. Maximum size is 5MB."
        media.upload_images.assert_not_called()

    def test_file_under_other_field_rejected(self, client, product_services, authenticate, make_user):
        authenticate(make_user())

        response = client.post(
            "/products", data=_listing_form(), files=[("avatar", _png())]
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Unexpected field name in upload."

    def test_invalid_form_fields_fail_before_upload(self, client, product_services, authenticate, make_user):
        _, media = product_services
        authenticate(make_user())

        response = client.post(
            "/products", data=_listing_form(price="-5"), files=[("images", _png())]
        )

        assert response.status_code == 400
        assert response.json()["message"].startswith("Field 'price'")
        media.upload_images.assert_not_called()

    def test_unauthenticated_upload_rejected(self, client, product_services):
        _, media = product_services

        response = client.post(
            "/products", data=_listing_form(), files=[("images", _png())]
        )

        assert response.status_code == 401
        media.upload_images.assert_not_called()

    def test_non_owner_update_uploads_nothing(self, client, product_services, authenticate, make_user):
        products, media = product_services
        authenticate(make_user())
        products.get = AsyncMock(return_value=_make_product(uuid4(), [KEPT]))

        response = client.put(
            f"/products/{uuid4()}", data={"images": [KEPT]}, files=[("images", _png())]
        )

        assert response.status_code == 403
        media.upload_images.assert_not_called()

    def test_update_appends_uploads_and_drops_missing(self, client, product_services, authenticate, make_user):
        products, media = product_services
        user = authenticate(make_user())
        old = "https://res.cloudinary.com/demo/image/upload/v1/marketplace/products/old.jpg"
        existing = _make_product(user.id, [KEPT, old])
        products.get = AsyncMock(return_value=existing)
        products.update = AsyncMock(return_value=existing)

        response = client.put(
            f"/products/{existing.id}",
            data={"images": [KEPT], "title": "Yamaha MT-07 (2019)"},
            files=[("images", _png("new.png"))],
        )

        assert response.status_code == 200, response.text
        update = products.update.call_args.args[1]
        assert update.title == "Yamaha MT-07 (2019)"
        assert update.images == [
            KEPT,
            "https://res.cloudinary.com/demo/image/upload/v2/products/new.png",
        ]
        assert "price" not in update.model_fields_set
        media.delete_images.assert_awaited_once_with([old])


# ---------------------------------------------------------------------------
# Ads, categories and profiles
# ---------------------------------------------------------------------------

class TestSingleImageUploads:

    def test_ad_created_from_file(self, client, ad_services, as_admin):
        ads, media = ad_services
        ads.create = AsyncMock(return_value=_make_ad(as_admin.id))

        response = client.post(
            "/ads",
            data={"title": "Spring sale", "description": "20% off", "position": "sidebar"},
            files={"image": _png("banner.png")},
        )

        assert response.status_code == 201, response.text
        assert media.upload_images.call_args.args[1] == "ads"
        created = ads.create.call_args.args[0]
        assert created.image == UPLOADED
        assert created.position == "sidebar"

    def test_ad_without_image_rejected(self, client, ad_services, as_admin):
        ads, media = ad_services

        response = client.post(
            "/ads", data={"title": "Spring sale", "description": "20% off"}
        )

        assert response.status_code == 400
        assert response.json()["message"].startswith("Field 'image'")
        media.upload_images.assert_not_called()

    def test_ad_accepts_one_file(self, client, ad_services, as_admin):
        response = client.post(
            "/ads",
            data={"title": "Spring sale", "description": "20% off"},
            files=[("image", _png("a.png")), ("image", _png("b.png"))],
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Too many files uploaded. Maximum is 1 file."

    def test_ad_image_replaced_by_upload(self, client, ad_services, as_admin):
        ads, media = ad_services
        old = "https://res.cloudinary.com/demo/image/upload/v1/marketplace/ads/old.jpg"
        existing = _make_ad(as_admin.id, image=old)
        ads.get = AsyncMock(return_value=existing)
        ads.update = AsyncMock(return_value=_make_ad(as_admin.id))

        response = client.put(f"/ads/{existing.id}", files={"image": _png()})

        assert response.status_code == 200, response.text
        assert ads.update.call_args.args[1].image == UPLOADED
        media.delete_image.assert_awaited_once_with(old)

    def test_category_created_from_file(self, client, as_admin):
        now = datetime.now(timezone.utc)
        with (
            patch("marketplace.api.categories.CategoryService") as MockCategoryService,
            patch("marketplace.api.categories.MediaService") as MockMediaService,
        ):
            categories = MockCategoryService.return_value
            media = MockMediaService.return_value
            categories.find_conflict = AsyncMock(return_value=None)
            categories.create = AsyncMock(
                return_value=Category(
                    id=uuid4(),
                    name="Scooters",
                    slug="scooters",
                    image=UPLOADED,
                    created_at=now,
                    updated_at=now,
                )
            )
            media.upload_images = AsyncMock(return_value=[UPLOADED])

            response = client.post(
                "/categories", data={"name": "Scooters"}, files={"image": _png()}
            )

        assert response.status_code == 201, response.text
        assert media.upload_images.call_args.args[1] == "categories"
        assert categories.create.call_args.args[0].image == UPLOADED

    def test_profile_image_upload_replaces_old(self, client, auth_stack):
        store, _ = auth_stack
        registered = client.post(
            "/users/register",
            json={
                "firstName": "Jane",
                "lastName": "Doe",
                "email": "jane@example.com",
                "password": "s3cure-password",
            },
        ).json()
        headers = {"Authorization": f"Bearer {registered['accessToken']}"}
        first = "https://res.cloudinary.com/demo/image/upload/v1/marketplace/users/me.jpg"

        with patch("marketplace.api.users.MediaService") as MockMediaService:
            media = MockMediaService.return_value
            media.upload_images = AsyncMock(return_value=[first])
            media.delete_image = AsyncMock(return_value=True)

            response = client.put("/users/profile", files={"image": _png()}, headers=headers)
            assert response.status_code == 200, response.text
            assert response.json()["user"]["image"] == first
            assert media.upload_images.call_args.args[1] == "users"
            media.delete_image.assert_not_called()

            media.upload_images = AsyncMock(return_value=[UPLOADED])
            response = client.put(
                "/users/profile",
                data={"firstName": "Janet"},
                files={"image": _png()},
                headers=headers,
            )

        assert response.status_code == 200
        assert response.json()["user"]["firstName"] == "Janet"
        assert response.json()["user"]["image"] == UPLOADED
        media.delete_image.assert_awaited_once_with(first)


# ---------------------------------------------------------------------------
# Through the real media client
# ---------------------------------------------------------------------------

class TestUploadThroughMediaService:

    @pytest.fixture
    def media_settings(self):
        return Settings(
            cloudinary_cloud_name="demo",
            cloudinary_api_key="key-123",
            cloudinary_api_secret="shh",
        )

    def test_ad_upload_reaches_cloudinary(self, client, as_admin, media_settings):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"secure_url": UPLOADED})

        transport = httpx.MockTransport(handler)
        with (
            patch("marketplace.api.ads.AdService") as MockAdService,
            patch(
                "marketplace.api.ads.MediaService",
                side_effect=lambda: MediaService(settings=media_settings, transport=transport),
            ),
        ):
            ads = MockAdService.return_value
            ads.create = AsyncMock(return_value=_make_ad(as_admin.id))

            response = client.post(
                "/ads",
                data={"title": "Spring sale", "description": "20% off"},
                files={"image": _png("banner.png")},
            )

        assert response.status_code == 201, response.text
        assert len(seen) == 1
        assert str(seen[0].url) == "https://api.cloudinary.com/v1_1/demo/image/upload"
        assert b'name="folder"\r\n\r\nmarketplace/ads' in seen[0].content
        assert b'filename="banner.png"' in seen[0].content
        assert ads.create.call_args.args[0].image == UPLOADED

    def test_media_failure_fails_request(self, client, as_admin, media_settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        with (
            patch("marketplace.api.ads.AdService") as MockAdService,
            patch(
                "marketplace.api.ads.MediaService",
                side_effect=lambda: MediaService(settings=media_settings, transport=transport),
            ),
        ):
            ads = MockAdService.return_value
            ads.create = AsyncMock()

            response = client.post(
                "/ads",
                data={"title": "Spring sale", "description": "20% off"},
                files={"image": _png()},
            )

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Error uploading image"}
        ads.create.assert_not_called()

