"""Application Security content types."""
from .schema import ContentTypeDefinition, Module, OffsetPaginated, Paginated


APPSEC_MODULE = Module(
    id="appsec",
    name="Application Security",
    base_api_path="/public_api",
    content_types=(
        ContentTypeDefinition(
            name="applications",
            get_endpoint="appsec/v1/application",
            id_field="id",
            response_path="data",
            strategy=Paginated(page_param="page", page_size_param="pageSize", page_size=100),
        ),
        ContentTypeDefinition(
            name="policies",
            get_endpoint="appsec/v1/policies",
            id_field="id",
        ),
        ContentTypeDefinition(
            name="rules",
            get_endpoint="appsec/v1/rules",
            id_field="id",
            response_path="rules",
            strategy=OffsetPaginated(offset_param="offset", limit_param="limit", page_size=100),
        ),
        ContentTypeDefinition(
            name="repositories",
            get_endpoint="appsec/v1/repositories",
            id_field="assetId",
        ),
        ContentTypeDefinition(
            name="integrations",
            get_endpoint="appsec/v1/integrations",
            id_field="id",
        ),
    ),
)
