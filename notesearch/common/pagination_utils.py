import base64
import binascii
import json
from math import ceil
from typing import Tuple, Type, TypeVar

from sqlalchemy.orm import Query

from notesearch.schemas.pagination import PageDto, PageMetaDto, PageOptionsDto, ResponseCommon

T = TypeVar("T")


class PaginationHelper:
    """Helper class for creating paginated responses"""

    @staticmethod
    def create_meta(page: int, page_size: int, total_items: int) -> PageMetaDto:
        """
        Create pagination metadata

        Args:
            page: Current page number
            page_size: Items per page
            total_items: Total number of items

        Returns:
            PageMetaDto with calculated values
        """
        page_count = ceil(total_items / page_size) if page_size > 0 else 0

        return PageMetaDto(
            page=page,
            page_size=page_size,
            item_count=total_items,
            page_count=page_count,
            has_previous_page=page > 1,
            has_next_page=page < page_count,
        )

    @staticmethod
    def paginate_query(
        query: Query, page_options: PageOptionsDto, response_model: Type[T]
    ) -> PageDto[T]:
        """
        Apply pagination to a SQLAlchemy query

        Args:
            query: SQLAlchemy query object
            page_options: Pagination options from request
            response_model: Pydantic model for response items

        Returns:
            PageDto with paginated data and metadata
        """
        total_items = query.count()
        offset = (page_options.page - 1) * page_options.page_size
        items = query.offset(offset).limit(page_options.page_size).all()

        meta = PaginationHelper.create_meta(
            page=page_options.page,
            page_size=page_options.page_size,
            total_items=total_items,
        )
        data = [response_model.model_validate(item) for item in items]
        return PageDto(data=data, meta=meta)

    @staticmethod
    def create_response(
        paginated_data: PageDto[T], message: str = "SUCCESSFULLY", code: int = 200
    ) -> ResponseCommon[PageDto[T]]:
        """Wrap paginated data in ResponseCommon"""
        return ResponseCommon(
            code=code,
            success=True,
            message=message,
            data=paginated_data,
        )


class PageToken:
    """
    Opaque ``(limit, offset)`` cursor used by ranked result lists.

    Encoded as URL-safe base64 of a canonical JSON document, so the same
    cursor always produces the same token string.
    """

    @staticmethod
    def encode(limit: int, offset: int) -> str:
        payload = json.dumps({"limit": int(limit), "offset": int(offset)}, sort_keys=True, separators=(",", ":"))
        return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")

    @staticmethod
    def decode(token: str) -> Tuple[int, int]:
        """
        Decode a token produced by ``encode``.

        Raises:
            ValueError: If the token is malformed
        """
        try:
            raw = base64.urlsafe_b64decode(token.encode("ascii"))
            payload = json.loads(raw.decode("utf-8"))
        except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
            raise ValueError(f"malformed page token: {exc}") from exc

        if not isinstance(payload, dict):
            raise ValueError("malformed page token")
        limit = payload.get("limit", 0)
        offset = payload.get("offset", 0)
        if isinstance(limit, bool) or isinstance(offset, bool):
            raise ValueError("malformed page token")
        if not isinstance(limit, int) or not isinstance(offset, int) or offset < 0:
            raise ValueError("malformed page token")
        return limit, offset
