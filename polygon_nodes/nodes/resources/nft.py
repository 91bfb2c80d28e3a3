"""ERC-721 operations"""

from polygon_nodes.constants import ERC721_ABI
from polygon_nodes.errors import NodeOperationError
from polygon_nodes.nodes.base import ContractCall, Operation, Resource


def _collection(item) -> str:
    return item.address_param("contractAddress")


def _token_id(item) -> int:
    token_id = item.param("tokenId")
    try:
        text = str(token_id).strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text)
    except ValueError as e:
        raise NodeOperationError(f"Invalid token ID: {token_id}") from e


def _get_nft_metadata(item):
    return ContractCall(_collection(item), ERC721_ABI, "tokenURI", [_token_id(item)])


def _metadata_record(item, token_uri):
    return {"contractAddress": _collection(item), "tokenId": str(_token_id(item)), "tokenUri": token_uri}


def _get_nft_owner(item):
    return ContractCall(_collection(item), ERC721_ABI, "ownerOf", [_token_id(item)])


def _owner_record(item, owner):
    return {"contractAddress": _collection(item), "tokenId": str(_token_id(item)), "owner": owner}


def _get_collection_info(item):
    collection = _collection(item)
    return [
        ContractCall(collection, ERC721_ABI, "name"),
        ContractCall(collection, ERC721_ABI, "symbol"),
        # totalSupply is an optional ERC-721 extension
        ContractCall(collection, ERC721_ABI, "totalSupply", optional=True),
    ]


def _collection_record(item, results):
    name, symbol, total_supply = results
    return {
        "contractAddress": _collection(item),
        "name": name,
        "symbol": symbol,
        "totalSupply": "N/A" if total_supply is None else str(total_supply),
    }


def _get_nft_balance(item):
    return ContractCall(_collection(item), ERC721_ABI, "balanceOf", [item.address_param("ownerAddress")])


def _balance_record(item, balance):
    return {
        "contractAddress": _collection(item),
        "owner": item.address_param("ownerAddress"),
        "balance": str(balance),
    }


NFT = Resource(
    name="nft",
    display_name="NFT",
    default_operation="getNftMetadata",
    operations={
        "getNftMetadata": Operation(
            "Get NFT Metadata", _get_nft_metadata, _metadata_record, "Get NFT metadata from tokenURI"
        ),
        "getNftOwner": Operation("Get NFT Owner", _get_nft_owner, _owner_record, "Get owner of an NFT"),
        "getCollectionInfo": Operation(
            "Get Collection Info", _get_collection_info, _collection_record, "Get NFT collection info"
        ),
        "getNftBalance": Operation(
            "Get NFT Balance", _get_nft_balance, _balance_record, "Get number of NFTs held by an owner"
        ),
    },
)
