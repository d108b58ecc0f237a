"""GraphQL documents for the Shopify Admin API."""

QUERIES = {
  "product_create": """
    mutation productCreate($product: ProductCreateInput!) {
      productCreate(product: $product) {
        product {
          id
          title
          handle
          status
          variants(first: 1) {
            nodes {
              id
              inventoryItem { id }
            }
          }
        }
        userErrors { field message }
      }
    }
  """,

  "options_create": """
    mutation productOptionsCreate($productId: ID!, $options: [OptionCreateInput!]!) {
      productOptionsCreate(productId: $productId, options: $options, variantStrategy: LEAVE_AS_IS) {
        product {
          id
          options { id name values }
        }
        userErrors { field message code }
      }
    }
  """,

  "variants_bulk_create": """
    mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
      productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: REMOVE_STANDALONE_VARIANT) {
        productVariants {
          id
          title
          price
          inventoryItem { id }
        }
        userErrors { field message code }
      }
    }
  """,

  "variants_bulk_update": """
    mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
      productVariantsBulkUpdate(productId: $productId, variants: $variants) {
        productVariants {
          id
          price
          compareAtPrice
          inventoryItem { id }
        }
        userErrors { field message }
      }
    }
  """,

  "first_variant": """
    query firstVariant($id: ID!) {
      product(id: $id) {
        variants(first: 1) {
          nodes { id }
        }
      }
    }
  """,

  "media_create": """
    mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {
      productCreateMedia(productId: $productId, media: $media) {
        media {
          ... on MediaImage { id }
        }
        mediaUserErrors { field message }
      }
    }
  """,

  "collection_add_products": """
    mutation collectionAddProducts($id: ID!, $productIds: [ID!]!) {
      collectionAddProducts(id: $id, productIds: $productIds) {
        collection { id title }
        userErrors { field message }
      }
    }
  """,

  "primary_location": """
    {
      locations(first: 1) {
        edges {
          node { id }
        }
      }
    }
  """,

  "inventory_set_quantities": """
    mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
      inventorySetQuantities(input: $input) {
        inventoryAdjustmentGroup { id }
        userErrors { field message }
      }
    }
  """,

  "shop_currency": """
    {
      shop { currencyCode }
    }
  """,

  "collections": """
    {
      collections(first: 100) {
        edges {
          node {
            id
            title
            handle
            productsCount { count }
          }
        }
      }
    }
  """,

  "publications": """
    {
      publications(first: 20) {
        nodes { id name }
      }
    }
  """,

  "publish": """
    mutation publishablePublish($id: ID!, $input: [PublicationInput!]!) {
      publishablePublish(id: $id, input: $input) {
        userErrors { field message }
      }
    }
  """,
}
