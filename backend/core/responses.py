from rest_framework import status as http_status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response


def success(data, status=http_status.HTTP_200_OK, **meta) -> Response:
    payload = {"success": True, "data": data}
    if meta:
        payload["meta"] = meta
    return Response(payload, status=status)


class EnvelopePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "limit"
    max_page_size = 100

    def get_paginated_response(self, data):
        return success(
            data,
            pagination={
                "current_page": self.page.number,
                "total_pages": self.page.paginator.num_pages,
                "total_items": self.page.paginator.count,
                "items_per_page": self.get_page_size(self.request),
            },
        )
