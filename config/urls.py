"""config URL Configuration

Only the GraphQL endpoint is mounted; the claim operations live in the schema.
"""
from django.urls import path
from django.views.decorators.csrf import csrf_exempt
from graphene_django.views import GraphQLView

from .schema import schema

urlpatterns = [
    path('graphql/', csrf_exempt(GraphQLView.as_view(schema=schema, graphiql=False))),
]
