"""Tests for listing.py module and the client listings built on it."""

import httpx
import pytest

from conftest import make_client
from s3proto.errors import InvalidResponseError
from s3proto.listing import decode_objects_page, decode_parts_page, decode_uploads_page, paginate
from s3proto.models import ChecksumAlgorithm, ListingPage

OBJECTS_PAGE_1 = b"""<?xml version="1.0" encoding="UTF-8"?>
<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Name>bucket</Name><Prefix></Prefix><KeyCount>3</KeyCount><MaxKeys>1000</MaxKeys>
  <Delimiter>/</Delimiter><EncodingType>url</EncodingType>
  <IsTruncated>true</IsTruncated><NextContinuationToken>token-2</NextContinuationToken>
  <Contents><Key>a%20file.txt</Key><LastModified>2024-04-11T15:37:13.000Z</LastModified>
    <ETag>"etag-a"</ETag><Size>12</Size><StorageClass>STANDARD</StorageClass></Contents>
  <CommonPrefixes><Prefix>photos%2F</Prefix></CommonPrefixes>
  <Contents><Key>b.txt</Key><LastModified>2024-04-11T15:37:14Z</LastModified>
    <ETag>"etag-b"</ETag><Size>3</Size><StorageClass>STANDARD</StorageClass></Contents>
</ListBucketResult>"""

OBJECTS_PAGE_2 = b"""<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Name>bucket</Name><EncodingType>url</EncodingType><IsTruncated>false</IsTruncated>
  <Contents><Key>c+d.txt</Key><ETag>"etag-c"</ETag><Size>7</Size></Contents>
</ListBucketResult>"""

PARTS_PAGE = b"""<ListPartsResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Bucket>bucket</Bucket><Key>big.bin</Key><UploadId>upload-1</UploadId>
  <NextPartNumberMarker>2</NextPartNumberMarker><IsTruncated>true</IsTruncated>
  <Part><PartNumber>1</PartNumber><ETag>"p1"</ETag><Size>16777216</Size>
    <LastModified>2024-04-11T15:37:13.000Z</LastModified><ChecksumCRC32>AAAAAA==</ChecksumCRC32></Part>
  <Part><PartNumber>2</PartNumber><ETag>"p2"</ETag><Size>16777216</Size></Part>
</ListPartsResult>"""

PARTS_LAST_PAGE = b"""<ListPartsResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <IsTruncated>false</IsTruncated>
  <Part><PartNumber>3</PartNumber><ETag>"p3"</ETag><Size>5</Size></Part>
</ListPartsResult>"""

UPLOADS_PAGE = b"""<ListMultipartUploadsResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <Bucket>bucket</Bucket><EncodingType>url</EncodingType>
  <NextKeyMarker>my%20key</NextKeyMarker><NextUploadIdMarker>u-2</NextUploadIdMarker>
  <IsTruncated>true</IsTruncated>
  <Upload><Key>my%20key</Key><UploadId>u-1</UploadId><Initiated>2024-04-11T15:37:13.000Z</Initiated></Upload>
  <Upload><Key>my%20key</Key><UploadId>u-2</UploadId></Upload>
</ListMultipartUploadsResult>"""

UPLOADS_LAST_PAGE = b"""<ListMultipartUploadsResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">
  <IsTruncated>false</IsTruncated>
  <Upload><Key>other</Key><UploadId>u-3</UploadId></Upload>
</ListMultipartUploadsResult>"""


class FakePages:
    """Page fetcher serving a fixed list of pages and recording tokens."""

    def __init__(self, *pages):
        self.pages = list(pages)
        self.tokens = []

    async def __call__(self, token):
        self.tokens.append(token)
        return self.pages[len(self.tokens) - 1]


class TestPaginate:
    """Tests for the shared pagination loop."""

    @pytest.mark.asyncio
    async def test_pages_concatenated_in_order(self):
        """Items from every page are yielded in server order."""
        fetch = FakePages(
            ListingPage([1, 2], "t2", True),
            ListingPage([3], "t3", True),
            ListingPage([4, 5], None, False),
        )

        items = [item async for item in paginate(fetch)]

        assert items == [1, 2, 3, 4, 5]
        assert fetch.tokens == [None, "t2", "t3"]

    @pytest.mark.asyncio
    async def test_single_page(self):
        """A non-truncated first page ends the listing."""
        fetch = FakePages(ListingPage(["only"], "ignored", False))

        assert [item async for item in paginate(fetch)] == ["only"]
        assert fetch.tokens == [None]

    @pytest.mark.asyncio
    async def test_empty_pages_followed(self):
        """An empty but truncated page still leads to the next one."""
        fetch = FakePages(ListingPage([], "t2", True), ListingPage(["x"], None, False))

        assert [item async for item in paginate(fetch)] == ["x"]

    @pytest.mark.asyncio
    async def test_truncated_without_token(self):
        """A truncated page without a token is an invalid response."""
        fetch = FakePages(ListingPage([1], None, True))

        with pytest.raises(InvalidResponseError):
            [item async for item in paginate(fetch)]

    @pytest.mark.asyncio
    async def test_starting_token(self):
        """A listing can start from a known token."""
        fetch = FakePages(ListingPage([9], None, False))

        [item async for item in paginate(fetch, token="resume")]

        assert fetch.tokens == ["resume"]


class TestDecoders:
    """Tests for the listing document decoders."""

    def test_objects_page(self):
        """Contents and common prefixes decode in document order."""
        page = decode_objects_page(OBJECTS_PAGE_1)

        assert [item.key for item in page.items] == ["a file.txt", "photos/", "b.txt"]
        assert [item.is_prefix for item in page.items] == [False, True, False]
        assert page.items[0].size == 12
        assert page.items[0].etag == '"etag-a"'
        assert page.items[0].last_modified.year == 2024
        assert page.items[2].last_modified.second == 14
        assert page.next_token == "token-2"
        assert page.is_truncated is True

    def test_plus_decoded_as_space(self):
        """URL-encoded keys use form decoding."""
        page = decode_objects_page(OBJECTS_PAGE_2)
        assert page.items[0].key == "c d.txt"
        assert page.is_truncated is False
        assert page.next_token is None

    def test_keys_kept_without_encoding_type(self):
        """Keys are left alone when the response is not URL-encoded."""
        page = decode_objects_page(
            b"<ListBucketResult><IsTruncated>false</IsTruncated>"
            b"<Contents><Key>a%20b</Key></Contents></ListBucketResult>"
        )
        assert page.items[0].key == "a%20b"
        assert page.items[0].size == -1

    def test_malformed_xml(self):
        """Unparseable listings raise InvalidResponseError."""
        with pytest.raises(InvalidResponseError):
            decode_objects_page(b"<ListBucketResult>")

    def test_parts_page(self):
        """Parts carry their number, ETag, size and checksums."""
        page = decode_parts_page(PARTS_PAGE)

        assert [part.part_number for part in page.items] == [1, 2]
        assert page.items[0].checksums == {ChecksumAlgorithm.CRC32: "AAAAAA=="}
        assert page.next_token == "2"

    def test_uploads_page_token_is_pair(self):
        """The uploads token combines key and upload ID markers."""
        page = decode_uploads_page(UPLOADS_PAGE)

        assert [upload.upload_id for upload in page.items] == ["u-1", "u-2"]
        assert page.items[0].key == "my key"
        assert page.next_token == ("my key", "u-2")


class TestClientListings:
    """Token threading through S3Client listings."""

    @pytest.mark.asyncio
    async def test_list_objects_threads_continuation_token(self):
        """The second request carries the first page's token."""
        pages = iter([OBJECTS_PAGE_1, OBJECTS_PAGE_2])
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=next(pages))

        client = make_client(handler)
        keys = [item.key async for item in client.list_objects("bucket")]

        assert keys == ["a file.txt", "photos/", "b.txt", "c d.txt"]
        assert "continuation-token" not in requests[0].url.params
        assert requests[1].url.params["continuation-token"] == "token-2"
        assert requests[0].url.params["list-type"] == "2"
        assert requests[0].url.params["delimiter"] == "/"
        assert requests[0].url.params["encoding-type"] == "url"
        assert requests[0].url.params["prefix"] == ""

    @pytest.mark.asyncio
    async def test_recursive_listing_has_no_delimiter(self):
        """Recursive listings are not grouped by '/'."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=OBJECTS_PAGE_2)

        client = make_client(handler)
        [item async for item in client.list_objects("bucket", prefix="logs/", recursive=True, max_keys=50)]

        params = requests[0].url.params
        assert "delimiter" not in params
        assert params["prefix"] == "logs/"
        assert params["max-keys"] == "50"

    @pytest.mark.asyncio
    async def test_list_parts_threads_marker(self):
        """ListParts sends the next part-number marker."""
        pages = iter([PARTS_PAGE, PARTS_LAST_PAGE])
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=next(pages))

        client = make_client(handler)
        numbers = [part.part_number async for part in client.list_parts("bucket", "big.bin", "upload-1")]

        assert numbers == [1, 2, 3]
        assert requests[0].url.params["uploadId"] == "upload-1"
        assert "part-number-marker" not in requests[0].url.params
        assert requests[1].url.params["part-number-marker"] == "2"

    @pytest.mark.asyncio
    async def test_list_uploads_threads_both_markers(self):
        """ListMultipartUploads sends key and upload ID markers together."""
        pages = iter([UPLOADS_PAGE, UPLOADS_LAST_PAGE])
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=next(pages))

        client = make_client(handler)
        ids = [upload.upload_id async for upload in client.list_multipart_uploads("bucket")]

        assert ids == ["u-1", "u-2", "u-3"]
        assert "uploads" in requests[0].url.params
        assert requests[1].url.params["key-marker"] == "my key"
        assert requests[1].url.params["upload-id-marker"] == "u-2"
