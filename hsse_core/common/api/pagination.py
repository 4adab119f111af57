# hsse_core/common/api/pagination.py
from __future__ import annotations

from typing import Any, Optional

from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


class DefaultPagination(PageNumberPagination):
    """
    Page size comes from REST_FRAMEWORK["PAGE_SIZE"]; clients may ask for up to 100.
    """
    page_size_query_param = "page_size"
    max_page_size = 100


def paginate(
    request,
    queryset,
    serializer_class,
    *,
    context: Optional[dict[str, Any]] = None,
    paginator: Optional[PageNumberPagination] = None,
) -> Response:
    """
    List endpoints answer { count, next, previous, results }.
    Serializers get the request in their context.
    """
    p = paginator or DefaultPagination()
    ctx = {"request": request, **(context or {})}

    page = p.paginate_queryset(queryset, request)
    if page is None:
        return Response(serializer_class(queryset, many=True, context=ctx).data)
    return p.get_paginated_response(serializer_class(page, many=True, context=ctx).data)
