from blockchain import schema as blockchain_schema
import graphene
import logging

logger = logging.getLogger(__name__)


class Query(blockchain_schema.Query, graphene.ObjectType):
	pass


class Mutation(blockchain_schema.Mutation, graphene.ObjectType):
	pass


schema = graphene.Schema(
	query=Query,
	mutation=Mutation,
)

__all__ = ['schema']
