from streamapp.utils.helpers import isoformat_utc


def serialize_category(category):
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "image_url": category.image_url,
        "order": category.order,
        "created_at": isoformat_utc(category.created_at),
    }


def serialize_user(user):
    return {
        "id": user.id,
        "wallet_address": user.wallet_address,
        "username": user.username,
        "display_name": user.display_name,
        "bio": user.bio,
        "email": user.email,
        "avatar_url": user.avatar_url,
        "created_at": isoformat_utc(user.created_at),
        "updated_at": isoformat_utc(user.updated_at),
    }


def serialize_profile_summary(user):
    """The public subset of a profile shown next to streams and follows."""
    if user is None:
        return None
    return {
        "wallet_address": user.wallet_address,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
    }


def serialize_stream(stream, include_category=True, **extra):
    data = {
        "id": stream.id,
        "creator_address": stream.creator_address,
        "title": stream.title,
        "description": stream.description,
        "category_id": stream.category_id,
        "livepeer_stream_id": stream.livepeer_stream_id,
        "livepeer_playback_id": stream.livepeer_playback_id,
        "livepeer_stream_key": stream.livepeer_stream_key,
        "asset_id": stream.asset_id,
        "asset_playback_id": stream.asset_playback_id,
        "is_live": stream.is_live,
        "viewer_count": stream.viewer_count,
        "like_count": stream.like_count,
        "scheduled_at": isoformat_utc(stream.scheduled_at),
        "started_at": isoformat_utc(stream.started_at),
        "ended_at": isoformat_utc(stream.ended_at),
        "vod_url": stream.vod_url,
        "preview_image_url": stream.preview_image_url,
        "has_minting": stream.has_minting,
        "mint_contract_address": stream.mint_contract_address,
        "mint_token_id": stream.mint_token_id,
        "mint_metadata_uri": stream.mint_metadata_uri,
        "mint_max_supply": stream.mint_max_supply,
        "mint_per_wallet_limit": stream.mint_per_wallet_limit,
        "mint_current_supply": stream.mint_current_supply,
        "created_at": isoformat_utc(stream.created_at),
        "updated_at": isoformat_utc(stream.updated_at),
    }
    if include_category:
        data["category"] = serialize_category(stream.category)
    data.update(extra)
    return data


def serialize_chat_message(message):
    return {
        "id": message.id,
        "stream_id": message.stream_id,
        "sender_address": message.sender_address,
        "message": message.message,
        "created_at": isoformat_utc(message.created_at),
    }


def serialize_follow(follow):
    return {
        "id": follow.id,
        "follower_address": follow.follower_address,
        "following_address": follow.following_address,
        "created_at": isoformat_utc(follow.created_at),
    }


def serialize_review(review):
    return {
        "id": review.id,
        "reviewer_address": review.reviewer_address,
        "reviewee_address": review.reviewee_address,
        "rating": review.rating,
        "comment": review.comment,
        "created_at": isoformat_utc(review.created_at),
    }
